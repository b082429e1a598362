"""Built-in booking notification templates (Telegram Markdown)."""

from courier.templates.engine import NotificationTemplate

BOOKING_TEMPLATES: list[NotificationTemplate] = [
    NotificationTemplate(
        key="booking.created.traveler",
        body=(
            "✅ *Booking Created!*\n\n"
            "*Agency:* {{agencyName}}\n"
            "*Destination:* {{destination}}\n"
            "*Price:* {{price}} {{currency}}\n"
            "*Booking ID:* {{shortBookingId}}...\n\n"
            "The agency has been notified and will confirm your booking shortly."
        ),
    ),
    NotificationTemplate(
        key="booking.created.agent",
        body=(
            "✅ *Offer Accepted!*\n\n"
            "*Destination:* {{destination}}\n"
            "*Price:* {{price}} {{currency}}\n"
            "*Booking ID:* {{shortBookingId}}...\n\n"
            "The traveler has accepted your offer. Please prepare the booking confirmation."
        ),
    ),
    NotificationTemplate(
        key="booking.created.manager",
        body=(
            "\U0001f4dd *New Booking!*\n\n"
            "*Destination:* {{destination}}\n"
            "*Agency:* {{agencyName}}\n"
            "*Price:* {{price}} {{currency}}\n"
            "*Booking ID:* {{shortBookingId}}..."
        ),
    ),
]
