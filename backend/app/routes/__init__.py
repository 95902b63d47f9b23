# Routes package init
"""
NeighborHelp Backend: API Routes Package
=========================================

Route Inventory:
    - messages.py: /api/messages/*   (send, mailboxes, read, delete, recipients)
    - health.py:   GET /health       (database and notifier status)

Routes stay thin: resolve the caller, call MessageService, set status
codes and headers.
"""
