"""
CivicDesk - Bedrock LLM Backend

Amazon Bedrock client used by the classification gateway.
"""

import logging
from typing import Dict, Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class BedrockLLM:
    """
    Amazon Bedrock LLM client.

    Supports Claude models via Bedrock's converse API, with optional image
    content for photo analysis.
    """

    def __init__(
        self,
        model_id: str,
        region: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client=None,
    ):
        """
        Initialize Bedrock client.

        Args:
            model_id: Bedrock model ID
            region: AWS region (defaults to session region)
            timeout_seconds: Connect/read timeout for the HTTP call
            client: Pre-built bedrock-runtime client (tests)
        """
        self.model_id = model_id
        self.region = region or boto3.Session().region_name or "us-east-1"

        self.client = client or boto3.client(
            "bedrock-runtime",
            region_name=self.region,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1},
            ),
        )

    def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        image_bytes: Optional[bytes] = None,
        media_type: str = "image/jpeg",
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Dict[str, Any]:
        """
        Send a single-turn request to Bedrock.

        Args:
            prompt: User prompt text
            system: System prompt
            image_bytes: Optional image to attach before the prompt
            media_type: MIME type of the image
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            {"success": True, "text": ...} or {"success": False, "error": ...}
        """
        content: List[Dict[str, Any]] = []
        if image_bytes is not None:
            content.append({
                "image": {
                    "format": IMAGE_FORMATS.get(media_type.lower(), "jpeg"),
                    "source": {"bytes": image_bytes},
                }
            })
        content.append({"text": prompt})

        request = {
            "modelId": self.model_id,
            "messages": [{"role": "user", "content": content}],
            "inferenceConfig": {
                "maxTokens": max_tokens,
                "temperature": temperature,
            },
        }

        if system:
            request["system"] = [{"text": system}]

        try:
            response = self.client.converse(**request)
            return self._parse_response(response)

        except ClientError as e:
            logger.warning(f"Bedrock request failed: {e}")
            return {
                "success": False,
                "error": str(e),
                "error_code": e.response["Error"]["Code"],
            }
        except BotoCoreError as e:
            logger.warning(f"Bedrock request failed: {e}")
            return {"success": False, "error": str(e)}

    def _parse_response(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """Parse Bedrock response into standard format."""
        output = response.get("output", {})
        message = output.get("message", {})

        text = "".join(
            item["text"] for item in message.get("content", []) if "text" in item
        )

        return {
            "success": bool(text),
            "text": text,
            "error": None if text else "Empty response",
            "stop_reason": response.get("stopReason"),
            "usage": response.get("usage", {}),
        }
