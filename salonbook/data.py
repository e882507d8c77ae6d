# salonbook/data.py

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled")

# Statuses that hold a slot
ACTIVE_STATUSES = ("pending", "confirmed")

shop_settings = {
    "slot_minutes": 30,
    "look_ahead_margin_minutes": 60,
}

# Label of the add-on block embedded in appointment notes by older clients
ADDITIONAL_SERVICES_LABEL = "Serviços Adicionais:"
CANCELLATION_REASON_LABEL = "Motivo do cancelamento:"
