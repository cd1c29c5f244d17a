"""Service catalog with pricing, descriptions and menu numbering."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, dict] = {
    "urgencia": {
        "name": "Urgencia Médica",
        "menu_label": "Urgencia médica",
        "price": "$60",
    },
    "consulta": {
        "name": "Consulta Odontológica",
        "menu_label": "Agendar consulta",
        "price": "$25",
    },
    "limpieza": {
        "name": "Limpieza Dental",
        "menu_label": "Limpieza dental",
        "price": "$15",
    },
    "ortodoncia": {
        "name": "Evaluación de Ortodoncia",
        "menu_label": "Ortodoncia",
        "price": "$80",
    },
}

MENU_OPTIONS: dict[str, str] = {
    "1": "urgencia",
    "2": "consulta",
    "3": "limpieza",
    "4": "ortodoncia",
}


def get_service_keywords() -> list[str]:
    """Return the catalog ids, which double as trigger keywords."""
    return list(SERVICE_CATALOG.keys())


def get_menu() -> list[tuple[str, dict]]:
    """Return ``(option number, service info)`` pairs in menu order."""
    return [(option, SERVICE_CATALOG[sid]) for option, sid in MENU_OPTIONS.items()]


def get_service_details(service_id: str) -> Optional[dict]:
    """Get full details for a specific service."""
    info = SERVICE_CATALOG.get(service_id)
    if info is None:
        return None
    return {"id": service_id, **info}


def match_service(choice: str) -> Optional[str]:
    """Match a menu answer (``"1"``..``"4"`` or a service keyword) to a service ID."""
    normalized = choice.lower().strip()
    if normalized in MENU_OPTIONS:
        return MENU_OPTIONS[normalized]
    if normalized in SERVICE_CATALOG:
        return normalized
    return None
