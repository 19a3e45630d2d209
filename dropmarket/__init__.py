"""Drop Market: group-buying drops, bookings and pickup fulfillment."""
