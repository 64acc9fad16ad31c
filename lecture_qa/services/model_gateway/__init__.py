"""
Model Gateway Service.

Example usage:
    from lecture_qa.services.model_gateway import ModelGatewayManager

    gateway = ModelGatewayManager(context, host="http://localhost:11434")
    await gateway.on_start(services)

    if await gateway.is_available():
        answer = await gateway.chat("What is a binary heap?")
        vector = await gateway.embed("binary heap")
"""

from lecture_qa.services.model_gateway.manager import (
    RETRY_EXHAUSTED_MESSAGE,
    ModelGatewayError,
    ModelGatewayManager,
)

__all__ = [
    "ModelGatewayManager",
    "ModelGatewayError",
    "RETRY_EXHAUSTED_MESSAGE",
]
