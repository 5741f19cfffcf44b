"""
blogsmith -- keyword-to-WordPress blog generation service.

Generates topics and long-form markdown articles with an LLM, decorates them
with stock or generated images, and publishes them to WordPress through a
resilient, retry-aware publish pipeline.

Usage:
    from blogsmith.publisher import PublishOrchestrator

    orchestrator = PublishOrchestrator(store=store, ai=ai_service)
    result = await orchestrator.publish("blog_1718000000000_ab12cd34e")
"""

__version__ = "1.0.0"
