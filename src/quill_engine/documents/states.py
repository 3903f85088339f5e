"""Status vocabularies for documents, recipients, and fields."""

# Document lifecycle
DRAFT = "draft"
SENT = "sent"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
EXPIRED = "expired"

DOCUMENT_STATUSES: frozenset[str] = frozenset({
    DRAFT, SENT, IN_PROGRESS, COMPLETED, CANCELLED, EXPIRED,
})
# Statuses in which signers may reach the document
ROUTABLE_STATUSES: frozenset[str] = frozenset({SENT, IN_PROGRESS})

# Routing modes
PARALLEL = "parallel"
SEQUENTIAL = "sequential"
ROUTING_MODES: frozenset[str] = frozenset({PARALLEL, SEQUENTIAL})

# Recipient gate
LOCKED = "locked"
ACTIVE = "active"

# Recipient progress
PENDING = "pending"
VIEWED = "viewed"
SIGNED = "signed"
DECLINED = "declined"
RECIPIENT_STATUSES: frozenset[str] = frozenset({PENDING, SENT, VIEWED, SIGNED, DECLINED})
RESOLVED_RECIPIENT_STATUSES: frozenset[str] = frozenset({SIGNED, DECLINED})

IDENTITY_METHODS: frozenset[str] = frozenset({"none", "email_otp", "sms_otp"})

# Fields
SIGNATURE = "signature"
INITIALS = "initials"
FIELD_TYPES: frozenset[str] = frozenset({SIGNATURE, INITIALS, "text", "date", "checkbox"})
IMAGE_FIELD_TYPES: frozenset[str] = frozenset({SIGNATURE, INITIALS})

# Reminders
REMINDER_PENDING = "pending"
REMINDER_SENT = "sent"
REMINDER_SKIPPED = "skipped"

# File locations
LOCAL = "local"
REMOTE = "remote"
