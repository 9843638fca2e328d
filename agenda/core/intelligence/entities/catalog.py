"""
Alias catalogs for service and doctor lookup.

Keys are canonical names as stored; aliases are matched against
accent-stripped, lowercased text on word boundaries.
"""

import re
from typing import Optional

SERVICE_ALIASES: dict[str, list[str]] = {
    "Examen Visual Completo": [
        "examen visual completo",
        "examen completo",
        "examen visual",
        "revision completa",
        "chequeo completo",
    ],
    "Terapia Visual": [
        "terapia visual",
        "terapia",
        "ejercicios visuales",
        "rehabilitacion visual",
    ],
    "Adaptación de Lentes de Contacto": [
        "adaptacion de lentes de contacto",
        "lentes de contacto",
        "lentillas",
        "adaptacion lentes",
    ],
    "Control Visual Rápido": [
        "control visual rapido",
        "control rapido",
        "revision rapida",
        "chequeo rapido",
    ],
}

DOCTOR_ALIASES: dict[str, list[str]] = {
    "Dr. Elena López": ["elena lopez", "doctora elena", "elena", "lopez", "pediatrica"],
    "Dr. Ana Rodríguez": ["ana rodriguez", "doctora ana", "ana", "rodriguez"],
    "Dr. Pedro Sánchez": ["pedro sanchez", "doctor pedro", "pedro", "sanchez", "contactologia"],
}


class AliasCatalog:
    """
    Alias-to-canonical lookup.

    The longest alias wins so that ``examen visual completo`` is preferred
    over ``examen visual`` and ``ana rodriguez`` over ``ana``.
    """

    def __init__(self, aliases: dict[str, list[str]]):
        entries = [
            (alias, canonical)
            for canonical, names in aliases.items()
            for alias in names
        ]
        entries.sort(key=lambda entry: len(entry[0]), reverse=True)
        self._entries = [
            (re.compile(rf"\b{re.escape(alias)}\b"), alias, canonical)
            for alias, canonical in entries
        ]
        self.canonical_names = list(aliases)

    def lookup(self, text: str) -> Optional[tuple[str, str]]:
        """Find the first alias in already-normalized text.

        Returns:
            (matched alias, canonical name) or None
        """
        for pattern, alias, canonical in self._entries:
            if pattern.search(text):
                return alias, canonical
        return None
