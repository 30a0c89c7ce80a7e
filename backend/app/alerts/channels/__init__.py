"""
channels — Per-channel delivery backends.

Each channel exposes a dispatcher whose ``send`` returns a DeliveryResult
and does not raise for provider errors:

    SmsGateway.send(destination, body)
    EmailSender.send(to, subject, html, text=None)

Dispatchers hold no alert state. Rate limiting lives in rate_limiter,
fan-out in alert_service.
"""
