from booking_admission.api.app import create_app
from booking_admission.api.services import Services, assemble, build_services

__all__ = ["create_app", "Services", "assemble", "build_services"]
