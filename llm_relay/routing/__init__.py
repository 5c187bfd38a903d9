from .selector import CandidateExplanation, CapabilityRouter

__all__ = ["CandidateExplanation", "CapabilityRouter"]
