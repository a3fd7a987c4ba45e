"""JSON marshalling of inventory documents."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class JsonDocumentMarshaller:
    def __init__(self, *, indent: Optional[int] = None) -> None:
        self._indent = indent

    def marshal(self, document: BaseModel) -> str:
        return document.model_dump_json(indent=self._indent)


__all__ = ["JsonDocumentMarshaller"]
