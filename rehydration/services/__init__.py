"""Services: admission, discover, notification, expiration and HTTP client."""
