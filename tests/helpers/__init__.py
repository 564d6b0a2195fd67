from .doubles import FakeAI, FakeBridge, FakeHttp
from .metric_delta import counter_value, metric_delta

__all__ = ["FakeAI", "FakeBridge", "FakeHttp", "counter_value", "metric_delta"]
