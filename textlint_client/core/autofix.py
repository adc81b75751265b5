from __future__ import annotations

from collections.abc import Iterable
import logging

from textlint_client.core.config import TextlintSettings
from textlint_client.core.editor import Disposable, SaveInterception, WillSaveEvent
from textlint_client.core.fixes import VersionedFixWorkflow
from textlint_client.core.types import SaveReason

logger = logging.getLogger(__name__)


class AutoFixOnSavePolicy:
    """Installs the will-save hook while ``auto_fix_on_save`` is on."""

    def __init__(
        self,
        workflow: VersionedFixWorkflow,
        saves: SaveInterception,
        languages: Iterable[str],
    ) -> None:
        self.workflow = workflow
        self.saves = saves
        self.languages = frozenset(languages)
        self._hook: Disposable | None = None

    @property
    def enabled(self) -> bool:
        return self._hook is not None

    def configure(self, settings: TextlintSettings) -> None:
        if settings.auto_fix_on_save:
            self.enable()
        else:
            self.dispose()

    def enable(self) -> None:
        if self._hook is not None:
            return
        logger.debug("Enabling textlint auto fix on save")
        self._hook = self.saves.on_will_save(self._on_will_save)

    def dispose(self) -> None:
        hook, self._hook = self._hook, None
        if hook is not None:
            logger.debug("Disabling textlint auto fix on save")
            hook.dispose()

    def _on_will_save(self, event: WillSaveEvent) -> None:
        if event.language_id not in self.languages:
            return
        # Delayed saves come from autosave timers and would refix in a loop
        if event.reason is SaveReason.AFTER_DELAY:
            return
        event.wait_until(self.workflow.compute_save_edits(event.uri, event.version))
