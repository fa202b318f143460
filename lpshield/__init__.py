"""LP Shield — impermanent-loss risk engine and counterfactual fee settlement."""

__version__ = "0.1.0"
