from .toy import Box, FrameDims, Toy, simulate_traces

__all__ = ["Box", "FrameDims", "Toy", "simulate_traces"]
