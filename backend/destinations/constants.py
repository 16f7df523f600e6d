"""Shared constants for destination configuration handling."""

# Value substituted for every secret on the way out. Callers send it back
# unchanged to mean "keep the stored value".
SECRET_PLACEHOLDER = "**********"

# Schema annotations:
# 1. SECRET_ANNOTATION marks a field as a credential (masked on output,
#    restored from the stored document when echoed back as the placeholder)
# 2. OAUTH_ANNOTATION marks a field whose value is supplied by the platform's
#    OAuth parameters for the connector
SECRET_ANNOTATION = "airbyte_secret"
OAUTH_ANNOTATION = "airbyte_oauth_param"

# Path elements used by the compiled secret index
ARRAY_ITEMS = "[]"
ANY_PROPERTY = "*"

# Suffix appended to the source name when a clone request does not name the copy
CLONE_NAME_SUFFIX = " (Copy)"
