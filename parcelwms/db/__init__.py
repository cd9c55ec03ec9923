# parcelwms/db/__init__.py
