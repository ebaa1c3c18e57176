# Automatically load all models so metadata knows them
from app.models.audit_log_model import AuditLog
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.models.fine_settings_model import FineSettings
from app.models.payment_request_model import PaymentRequest, PaymentRequestItem
from app.models.retailer_model import Retailer
