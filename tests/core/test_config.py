from gogarden.core.config import Settings


def test_image_allowed_hosts_parsing():
    settings = Settings(IMAGE_ALLOWED_HOSTS=" images.unsplash.com , supabase.co,")
    assert settings.image_allowed_hosts == ["images.unsplash.com", "supabase.co"]


def test_image_allowed_hosts_wildcard_allows_any():
    assert Settings(IMAGE_ALLOWED_HOSTS="*").image_allowed_hosts is None
