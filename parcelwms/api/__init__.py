# parcelwms/api/__init__.py
