class Axis:
    """Mixin providing common axis-related attributes."""

    frames_dim: str = "frame"
    height_dim: str = "height"
    width_dim: str = "width"
    pixels_dim: str = "pixels"
    component_dim: str = "component"
    """Name of the dimension representing individual components."""

    id_coord: str = "id_"
    frame_coord: str = "frame_idx"

    @property
    def spatial_dims(self) -> tuple[str, str]:
        """Names of the dimensions representing 2-d spatial coordinates Default: (height, width)."""
        return self.height_dim, self.width_dim


AXIS = Axis()
