from namegen.orchestration.coordinator import GenerationCoordinator

__all__ = ["GenerationCoordinator"]
