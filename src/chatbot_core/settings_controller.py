from __future__ import annotations

from dataclasses import replace

from chatbot_core.notifier import ChangeCallback, ChangeNotifier
from chatbot_core.store import RecordStore, Settings


class SettingsController:
    def __init__(self, store: RecordStore, notifier: ChangeNotifier | None = None):
        self._store = store
        self._notifier = notifier or ChangeNotifier()
        self._settings = store.get_settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def subscribe(self, callback: ChangeCallback) -> int:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, token: int) -> None:
        self._notifier.unsubscribe(token)

    def toggle_dark_mode(self, value: bool) -> Settings:
        return self._update(replace(self._settings, dark_mode=bool(value)))

    def toggle_voice(self, value: bool) -> Settings:
        return self._update(replace(self._settings, voice_enabled=bool(value)))

    def _update(self, settings: Settings) -> Settings:
        self._store.put_settings(settings)
        self._settings = settings
        self._notifier.notify(
            "settings.changed",
            {"dark_mode": settings.dark_mode, "voice_enabled": settings.voice_enabled},
        )
        return settings
