from gscms.models.user import User
from gscms.models.customer import Customer
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.costing import Approval, CostCalculation
from gscms.models.quote import ProductionOrder, Quote
from gscms.models.notification import Notification
from gscms.models.automation import AutomationLog, AutomationRule
from gscms.models.deadline import Deadline
from gscms.models.email_template import EmailTemplate
