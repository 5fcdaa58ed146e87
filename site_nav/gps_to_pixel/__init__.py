from site_nav.gps_to_pixel.affine_calibration import (
    AffineTransform,
    calibration_residuals,
    project,
    project_many,
    solve_affine,
    unproject,
)
from site_nav.gps_to_pixel.distance import distance_meters, meters_per_pixel, pixel_distance
