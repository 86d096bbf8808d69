"""
Campaign Service

SMS campaign microservice providing:
- Campaign lifecycle management (create, schedule, edit, delete)
- Enqueue transaction: credits debited and messages queued atomically
- Dispatch worker with retry / terminal classification and refunds
- Delivery report reconciliation and inbound STOP handling
- Campaign completion, idle-message sweep, preview, status and statistics
- Offer tracking and redemption

Port: 8251
"""

__version__ = "1.0.0"
__service__ = "campaign_service"
