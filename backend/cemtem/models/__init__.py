from cemtem.models.vendor import Vendor
from cemtem.models.inquiry import Inquiry
from cemtem.models.price_response import PriceResponse

__all__ = ["Vendor", "Inquiry", "PriceResponse"]
