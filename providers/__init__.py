from .yasno import OPERATORS, YasnoClient

def build_client(settings):
    return YasnoClient(
        base_url=settings.yasno_api_url,
        timeout=settings.request_timeout,
        tz_name=settings.timezone,
    )
