"""SQLAlchemy ORM models for the workflow kernel."""

from unifund_kernel.models.archive import ArchivedProfileModel
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.cascade import CascadeRunModel
from unifund_kernel.models.donation import DonationModel
from unifund_kernel.models.notification import NotificationModel
from unifund_kernel.models.profile import ProfileModel, StudentModel
from unifund_kernel.models.verification import VerificationRequestModel

__all__ = [
    "ArchivedProfileModel",
    "CampaignModel",
    "CascadeRunModel",
    "DonationModel",
    "NotificationModel",
    "ProfileModel",
    "StudentModel",
    "VerificationRequestModel",
]
