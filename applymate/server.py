"""HTTP surface: health check, outbound sends, and the inbound chat webhook."""

import asyncio
import base64
import logging
import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .coordinator import TurnCoordinator
from .errors import ImageExtractionError, ImageRateLimitError, InvalidImageError, UpstreamError
from .images import ImageExtractor, compose_image_message, to_data_url
from .keys import CredentialPool
from .transport import ChatTransport, format_chat_id

logger = logging.getLogger(__name__)

CLEAR_COMMAND = "/clear"
CLEARED_REPLY = "✅ Your conversation history has been cleared. Starting fresh!"
NOTHING_TO_CLEAR_REPLY = "✅ No conversation history to clear. You can start chatting!"
IMAGE_FAILED_REPLY = "Sorry, I had trouble processing the image. Please try again."


class SendMessageRequest(BaseModel):
    number: Optional[str] = None
    message: Optional[str] = None


class SendImageRequest(BaseModel):
    number: Optional[str] = None
    image_url: Optional[str] = None
    image_base64: Optional[str] = None
    file_path: Optional[str] = None
    caption: str = ""
    mimetype: Optional[str] = None
    filename: Optional[str] = None


class InboundMessage(BaseModel):
    sender: str = Field(alias="from")
    body: str = ""
    from_me: bool = False
    media_url: Optional[str] = None
    media_base64: Optional[str] = None
    mimetype: Optional[str] = None

    model_config = {"populate_by_name": True}

    @property
    def has_media(self) -> bool:
        return bool(self.media_url or self.media_base64)


def failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def validate_file_path(file_path: str, base_dir: Path) -> Path:
    """Resolve a path for sending, confined to base_dir."""
    if not file_path or not isinstance(file_path, str):
        raise ValueError("Invalid file path: must be a non-empty string")

    if ".." in file_path or "~" in file_path:
        raise ValueError("Invalid file path: directory traversal not allowed")

    resolved_base = base_dir.resolve()
    resolved = Path(file_path).resolve()

    if not resolved.is_relative_to(resolved_base):
        raise ValueError("Invalid file path: access outside allowed directory not permitted")

    if not resolved.exists():
        raise ValueError(f"File not found: {file_path}")

    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {file_path}")

    return resolved


def create_app(
    coordinator: TurnCoordinator,
    transport: ChatTransport,
    extractor: ImageExtractor,
    pool: CredentialPool,
    media_dir: Path,
) -> FastAPI:
    """Build the FastAPI application around an assembled coordinator."""
    app = FastAPI(title="ApplyMate")

    async def message_for_image(msg: InboundMessage) -> tuple[Optional[str], Optional[str]]:
        """(text for the agent, direct reply) for an inbound image."""
        if msg.media_base64:
            mimetype = msg.mimetype or "image/png"
            if not mimetype.startswith("image/"):
                return msg.body or None, None
            image_url = to_data_url(msg.media_base64, mimetype)
        else:
            image_url = msg.media_url

        try:
            extraction = await extractor.extract(image_url)
        except (ImageRateLimitError, InvalidImageError) as e:
            logger.warning(f"Image from {msg.sender} rejected: {e}")
            return None, str(e)
        except ImageExtractionError as e:
            logger.error(f"Image extraction failed for {msg.sender}: {e}")
            return None, IMAGE_FAILED_REPLY

        return compose_image_message(extraction, msg.body), None

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "client_ready": transport.ready,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "keys": pool.stats(),
        }

    @app.post("/send-message")
    async def send_message(request: SendMessageRequest):
        if not request.number or not request.message:
            return failure(400, "Both number and message are required")

        if not transport.ready:
            return failure(503, "Chat client is not ready yet")

        try:
            chat_id = format_chat_id(request.number)
            sent = await asyncio.to_thread(transport.send_text, chat_id, request.message)
        except (ValueError, UpstreamError) as e:
            logger.error(f"send-message failed: {e}")
            return failure(500, str(e))

        return {"success": True, **sent}

    @app.post("/send-image")
    async def send_image(request: SendImageRequest):
        if not request.number:
            return failure(400, "Number is required")

        if not request.image_url and not request.image_base64 and not request.file_path:
            return failure(400, "Either image_url, image_base64, or file_path is required")

        if not transport.ready:
            return failure(503, "Chat client is not ready yet")

        try:
            chat_id = format_chat_id(request.number)
            if request.image_url:
                image = {"url": request.image_url}
            elif request.file_path:
                path = validate_file_path(request.file_path, media_dir)
                image = {
                    "data": base64.b64encode(path.read_bytes()).decode("ascii"),
                    "mimetype": mimetypes.guess_type(path.name)[0] or "application/octet-stream",
                    "filename": path.name,
                }
            else:
                image = {
                    "data": request.image_base64,
                    "mimetype": request.mimetype or "image/png",
                    "filename": request.filename or "image.png",
                }
            sent = await asyncio.to_thread(transport.send_image, chat_id, image, request.caption)
        except (ValueError, UpstreamError) as e:
            logger.error(f"send-image failed: {e}")
            return failure(500, str(e))

        return {"success": True, **sent}

    @app.post("/webhook")
    async def webhook(msg: InboundMessage):
        if not msg.body.strip() and not msg.has_media:
            return {"success": True, "reply": None}

        if msg.from_me or "@g.us" in msg.sender:
            return {"success": True, "reply": None}

        user_id = msg.sender.replace("@c.us", "")
        text: Optional[str] = msg.body

        if text.strip() == CLEAR_COMMAND:
            reply = CLEARED_REPLY if coordinator.clear_memory(user_id) else NOTHING_TO_CLEAR_REPLY
        else:
            reply = None
            if msg.has_media:
                text, reply = await message_for_image(msg)
            if reply is None:
                if not text or not text.strip():
                    return {"success": True, "reply": None}
                reply = await coordinator.resolve(text, user_id)

        if transport.ready:
            try:
                await asyncio.to_thread(transport.send_text, format_chat_id(msg.sender), reply)
            except UpstreamError as e:
                logger.error(f"Could not deliver reply to {user_id}: {e}")
                return JSONResponse(status_code=502, content={"success": False, "reply": reply})

        return {"success": True, "reply": reply}

    return app
