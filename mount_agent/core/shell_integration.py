"""Desktop shell favorites (Finder sidebar, file manager bookmarks)."""

import logging
from abc import ABC, abstractmethod


class ShellIntegration(ABC):
    @abstractmethod
    def add_favorite(self, name: str, path: str) -> None:
        pass

    @abstractmethod
    def remove_favorite(self, name: str) -> None:
        pass


class NullShellIntegration(ShellIntegration):
    """Used when no desktop shell is available; only logs."""

    def add_favorite(self, name: str, path: str) -> None:
        logging.debug(f"No shell integration; not adding favorite '{name}' -> {path}")

    def remove_favorite(self, name: str) -> None:
        logging.debug(f"No shell integration; not removing favorite '{name}'")
