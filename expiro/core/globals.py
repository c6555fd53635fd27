"""Global variables."""

OPENAPI_TAGS = [
    {
        "name": "Products",
        "description": "Log, list and delete products with expiry dates",
    },
    {
        "name": "Profile",
        "description": "Display name and email reminder settings",
    },
    {
        "name": "Notifications",
        "description": "Reminder delivery history and test emails",
    },
    {
        "name": "Health",
        "description": "Application health check endpoints",
    },
]
