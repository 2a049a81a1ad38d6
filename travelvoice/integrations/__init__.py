"""
Clients for external providers: Vapi, Stripe, Twilio, Resend and file storage.
"""
