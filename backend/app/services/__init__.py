# Services package init
"""
NeighborHelp Backend: Services Layer
=====================================

Service Inventory:
    - ContentCipher: AES encryption of message bodies under a derived key
    - Notifier (abstract): contract for new-message notifications
    - EmailNotifier: Resend.com implementation of Notifier
    - CircuitBreaker: fail-fast guard around the email provider
    - MessageService: send / read / list / delete orchestration
"""
