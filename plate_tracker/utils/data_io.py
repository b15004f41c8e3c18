"""
Data I/O - Saving and loading of tracked plate rings.
"""

import json
import logging
import numpy as np
from pathlib import Path
from typing import List, Optional, Tuple

log = logging.getLogger(__name__)


def save_tracked_rings(rings: List[Optional[np.ndarray]], output_path: str,
                       metadata: Optional[dict] = None):
    """
    Save the ring of tracked points produced for each frame.
    
    Frames without a ring (detection mode or tracking lost) are stored as NaN rows,
    so the frame index is preserved.
    
    Args:
        rings: One entry per frame: array (n_points, 2) or None
        output_path: Output file path (.npz)
        metadata: Optional metadata stored as JSON
    """
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    
    max_points = max((len(r) for r in rings if r is not None), default=0)
    points = np.full((len(rings), max_points, 2), np.nan, dtype=np.float32)
    counts = np.zeros(len(rings), dtype=np.int32)
    
    for i, ring in enumerate(rings):
        if ring is None:
            continue
        ring = np.asarray(ring, dtype=np.float32).reshape(-1, 2)
        points[i, :len(ring)] = ring
        counts[i] = len(ring)
    
    save_dict = {'points': points, 'counts': counts}
    if metadata:
        save_dict['metadata'] = np.array([json.dumps(metadata)])
    
    np.savez_compressed(output_file, **save_dict)
    log.info(f"Tracked rings saved to: {output_path}")


def load_tracked_rings(input_path: str) -> Tuple[List[Optional[np.ndarray]], Optional[dict]]:
    """
    Load tracked rings saved by ``save_tracked_rings``.
    
    Args:
        input_path: Path of the .npz file
        
    Returns:
        Tuple (rings, metadata) where:
        - rings: List with an (n_points, 2) array or None per frame
        - metadata: Dictionary with the metadata (if present)
    """
    data = np.load(input_path, allow_pickle=False)
    points = data['points']
    counts = data['counts']
    
    rings: List[Optional[np.ndarray]] = []
    for frame_points, count in zip(points, counts):
        rings.append(frame_points[:count].copy() if count > 0 else None)
    
    metadata = None
    if 'metadata' in data:
        metadata = json.loads(str(data['metadata'][0]))
    
    return rings, metadata
