"""Replace ``#{Variable}`` tokens inside deployed files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from deploycore.variables import VariableDictionary

logger = logging.getLogger(__name__)


class Substituter(Protocol):
    def perform_substitution(self, path: Path, variables: VariableDictionary) -> None:
        ...


class FileSubstituter:
    """Rewrite a text file in place with its tokens evaluated."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def perform_substitution(self, path: Path, variables: VariableDictionary) -> None:
        original = path.read_text(encoding=self.encoding)
        replaced = variables.evaluate(original)
        if replaced == original:
            logger.debug(f"No substitutions in {path}")
            return
        path.write_text(replaced, encoding=self.encoding)
        logger.info(f"Performed variable substitution on {path}")
