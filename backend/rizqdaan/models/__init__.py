from rizqdaan.models.user import User
from rizqdaan.models.listing import Listing
from rizqdaan.models.campaign import AdCampaign
from rizqdaan.models.finance import DepositRequest, WithdrawalRequest
from rizqdaan.models.notification import Notification
from rizqdaan.models.settings import PlatformSetting
from rizqdaan.models.platform_event import PlatformEvent

__all__ = [
    "User",
    "Listing",
    "AdCampaign",
    "DepositRequest",
    "WithdrawalRequest",
    "Notification",
    "PlatformSetting",
    "PlatformEvent",
]
