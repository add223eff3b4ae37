"""
Services package for business logic.
"""
from app.services.auth_service import AuthService
from app.services.user_service import UserService
from app.services.core_config_service import CoreConfigService
from app.services.camping_option_service import CampingOptionService
from app.services.job_service import JobService
from app.services.shift_service import ShiftService
from app.services.registration_service import RegistrationService
from app.services.registration_admin_service import RegistrationAdminService
from app.services.admin_audit_service import AdminAuditService
from app.services.payment_service import PaymentService
from app.services.notification_service import NotificationService

__all__ = [
    'AuthService',
    'UserService',
    'CoreConfigService',
    'CampingOptionService',
    'JobService',
    'ShiftService',
    'RegistrationService',
    'RegistrationAdminService',
    'AdminAuditService',
    'PaymentService',
    'NotificationService',
]
