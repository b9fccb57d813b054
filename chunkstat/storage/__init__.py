"""
Out-of-core storage model

- A backing identity names one region of durable storage.
- Handles are the only way to reach an identity; aliasing adds a handle,
  never a region.
- A region is freed exactly when its last handle is released.
"""
