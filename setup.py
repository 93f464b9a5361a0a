from setuptools import setup, find_packages

setup(
    name="trip_photo_core",
    version="0.1.0",
    description="Photo EXIF geolocation and place classification utilities for trip planning",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "Pillow>=9.1",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "piexif>=1.1",
        ],
    },
    python_requires=">=3.9",
)
