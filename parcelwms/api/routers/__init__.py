# parcelwms/api/routers/__init__.py
