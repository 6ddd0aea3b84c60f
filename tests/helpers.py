class FailingMeter:
    """Meter whose every instrument registration is rejected."""

    def __getattr__(self, name):
        if name.startswith("create_"):
            def reject(*args, **kwargs):
                raise ValueError("duplicate instrument")
            return reject
        raise AttributeError(name)


class FailingMeterProvider:
    def get_meter(self, name, *args, **kwargs):
        return FailingMeter()
