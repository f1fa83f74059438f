from privacy.filter import PrivacyAnalysis, PrivacyFilter, SensitiveMatch

__all__ = ["PrivacyAnalysis", "PrivacyFilter", "SensitiveMatch"]
