"""Fachadas por dominio sobre `CareClient`.

Cada repositorio es dueño de las claves de cache de un `QueryDomain` y es el
único código que las escribe.
"""

from adapters.records.auth import AuthRepository
from adapters.records.bathing import BathingGrid
from adapters.records.excretion import ExcretionGrid
from adapters.records.master_settings import MasterSettingsRepository
from adapters.records.meals_medication import MealsMedicationGrid
from adapters.records.nursing_records import NursingRecordsRepository
from adapters.records.residents import ResidentRepository
from adapters.records.staff_notices import StaffNoticesRepository
from adapters.records.tenants import TenantRepository
from adapters.records.vitals import VitalSignsGrid
from adapters.records.weight import WeightGrid

__all__ = [
    "AuthRepository",
    "BathingGrid",
    "ExcretionGrid",
    "MasterSettingsRepository",
    "MealsMedicationGrid",
    "NursingRecordsRepository",
    "ResidentRepository",
    "StaffNoticesRepository",
    "TenantRepository",
    "VitalSignsGrid",
    "WeightGrid",
]
