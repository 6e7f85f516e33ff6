"""Decision engines: resolution, compatibility, compliance and the cache gate."""
