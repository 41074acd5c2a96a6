"""
The create_file tool: upload generated content to object storage and hand
back a time-limited download link.
"""

import re
import uuid

from caselli.clients.storage import StorageClient, StorageError
from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome
from caselli.tools.inputs import FILE_FORMATS, CreateFileInput

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str, fmt: str) -> str:
    """'Q3 pipeline report' + csv -> 'Q3-pipeline-report.csv'"""
    stem = filename.rsplit(".", 1)[0] if filename.lower().endswith(f".{fmt}") else filename
    stem = _UNSAFE_CHARS.sub("-", stem).strip("-.") or "file"
    return f"{stem[:80]}.{fmt}"


class CreateFile(ToolHandler):
    input_model = CreateFileInput
    task_type = "file_created"

    def __init__(self, storage: StorageClient, signed_url_ttl_seconds: int):
        self.storage = storage
        self.signed_url_ttl_seconds = signed_url_ttl_seconds

    async def run(self, params: CreateFileInput, ctx: ToolContext) -> ToolOutcome:
        fmt = params.format
        filename = safe_filename(params.filename, fmt)
        path = f"{ctx.owner_id}/{uuid.uuid4()}-{filename}"
        body = params.content.encode("utf-8")

        try:
            await self.storage.upload(path, body, FILE_FORMATS[fmt])
            url = await self.storage.create_signed_url(path, self.signed_url_ttl_seconds)
        except StorageError as e:
            return self.failure(f"Could not create file: {e}")

        return self.outcome(
            {
                "filename": filename,
                "url": url,
                "format": fmt,
                "size": len(body),
                "expires_in": self.signed_url_ttl_seconds,
            },
            f"Created file {filename}",
        )
