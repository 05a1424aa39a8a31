"""Registrar for domains whose delegation is managed elsewhere."""

from __future__ import annotations

from ..models import Correction, DomainConfig
from .base import Registrar


class NoneRegistrar(Registrar):
    TYPE_NAME = "NONE"

    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        return []
