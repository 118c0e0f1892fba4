from __future__ import annotations

from pathlib import Path

from .json_logger import JsonLogger, log_event


class FileDelivery:
    """Write export payloads into a local directory under their suggested name."""

    def __init__(self, directory: Path | str, *, logger: JsonLogger | None = None) -> None:
        self.directory = Path(directory).expanduser()
        self.logger = logger

    def deliver(self, data: bytes, suggested_name: str) -> Path:
        # Only the base name is honoured so a suggested name can never escape the directory.
        final_path = self.directory / Path(suggested_name).name
        final_path.parent.mkdir(parents=True, exist_ok=True)
        final_path.write_bytes(data)
        if self.logger is not None:
            log_event(
                logger=self.logger,
                phase="deliver",
                message="export written",
                path=str(final_path),
                bytes=len(data),
            )
        return final_path
