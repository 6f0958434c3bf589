"""Portal gateway: the auth engine and its HTTP surface."""
