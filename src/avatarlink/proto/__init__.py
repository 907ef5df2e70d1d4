"""Wire schema for the avatar ingress protocol."""
