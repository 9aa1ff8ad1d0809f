"""Static compliance framework catalog.

Reference data only: controls are attested per organization, never generated.
"""

from __future__ import annotations

from typing import Any

FRAMEWORKS: list[dict[str, Any]] = [
    {
        "id": "nist-ai-rmf",
        "name": "NIST AI RMF",
        "description": "AI Risk Management Framework",
        "controls": [
            ("GOV-1", "AI governance policies established"),
            ("GOV-2", "Roles and responsibilities defined"),
            ("MAP-1", "AI system context documented"),
            ("MAP-2", "Risk identification processes"),
            ("MEA-1", "Performance monitoring in place"),
            ("MEA-2", "Bias detection mechanisms"),
            ("MAN-1", "Risk response procedures"),
            ("MAN-2", "Incident response plan"),
        ],
    },
    {
        "id": "eu-ai-act",
        "name": "EU AI Act",
        "description": "European AI Regulation",
        "controls": [
            ("ART-9", "Risk management system"),
            ("ART-10", "Data governance"),
            ("ART-11", "Technical documentation"),
            ("ART-13", "Transparency & information"),
            ("ART-14", "Human oversight"),
            ("ART-15", "Accuracy & robustness"),
        ],
    },
    {
        "id": "soc2",
        "name": "SOC 2",
        "description": "Service Organization Controls",
        "controls": [
            ("CC1", "Control environment"),
            ("CC2", "Communication & information"),
            ("CC3", "Risk assessment"),
            ("CC5", "Control activities"),
            ("CC6", "Logical & physical access"),
            ("CC7", "System operations"),
        ],
    },
    {
        "id": "iso-27001",
        "name": "ISO 27001",
        "description": "Information Security Management",
        "controls": [
            ("A.5", "Information security policies"),
            ("A.6", "Organization of information security"),
            ("A.8", "Asset management"),
            ("A.9", "Access control"),
            ("A.12", "Operations security"),
            ("A.18", "Compliance"),
        ],
    },
    {
        "id": "gdpr",
        "name": "GDPR",
        "description": "General Data Protection Regulation",
        "controls": [
            ("ART-5", "Principles of processing"),
            ("ART-6", "Lawfulness of processing"),
            ("ART-25", "Data protection by design"),
            ("ART-32", "Security of processing"),
            ("ART-35", "Data protection impact assessment"),
        ],
    },
]

_BY_ID = {framework["id"]: framework for framework in FRAMEWORKS}


def get_framework(framework_id: str) -> dict[str, Any] | None:
    return _BY_ID.get(framework_id)


def control_title(framework_id: str, control_ref: str) -> str | None:
    framework = _BY_ID.get(framework_id)
    if not framework:
        return None
    for ref, title in framework["controls"]:
        if ref == control_ref:
            return title
    return None
