"""Download sinks that receive rendered reports."""

from __future__ import annotations

import base64
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Protocol

from browsebuddy.errors import DownloadError
from browsebuddy.io_utils import ensure_dir

LOGGER = logging.getLogger("browsebuddy.report.sinks")


class DownloadSink(Protocol):
    async def save(self, data: bytes, filename: str, prompt_for_location: bool = True) -> str:
        ...


def to_data_url(data: bytes, mime: str = "text/csv") -> str:
    """Base64 transport encoding used by browser download APIs."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class FileDownloadSink:
    """Writes reports into a local directory; the download id is the written path."""

    def __init__(self, output_dir: Path, overwrite: bool = False) -> None:
        self.output_dir = Path(output_dir)
        self.overwrite = overwrite

    async def save(self, data: bytes, filename: str, prompt_for_location: bool = True) -> str:
        if prompt_for_location:
            LOGGER.debug("No location prompt available; writing into %s", self.output_dir)
        target = self.output_dir / Path(filename).name
        if target.exists() and not self.overwrite:
            raise DownloadError(f"{target} already exists")
        try:
            ensure_dir(self.output_dir)
            target.write_bytes(data)
        except OSError as exc:
            raise DownloadError(f"could not write {target}: {exc}") from exc
        LOGGER.info("Wrote %d bytes to %s", len(data), target)
        return str(target)


class DataUrlDownloadSink:
    """Adapts a browser-style ``download(url=, filename=, save_as=)`` callable."""

    def __init__(self, download: Callable[..., Any], mime: str = "text/csv") -> None:
        self._download = download
        self.mime = mime

    async def save(self, data: bytes, filename: str, prompt_for_location: bool = True) -> str:
        url = to_data_url(data, self.mime)
        try:
            result = self._download(url=url, filename=filename, save_as=prompt_for_location)
            if inspect.isawaitable(result):
                result = await result
        except DownloadError:
            raise
        except Exception as exc:
            raise DownloadError(str(exc) or type(exc).__name__) from exc
        if result is None:
            raise DownloadError("download was not started")
        return str(result)
