"""
Use Cases Package.

Each use case is a self-contained module with its own:
- domain/: Pure business logic (policies, services)
- models and repositories: Entities and data access
- service.py: Wiring of the use case components

Available use cases:
- care: MediFlow appointment coordination, medical timeline and visit reports
"""

from use_cases.care import CareServices, build_services, create_services

__all__ = [
    "CareServices",
    "build_services",
    "create_services",
]
