# setup.py
from setuptools import setup, find_packages

setup(
    name="ssim_image_compressor",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "Pillow",
        "numpy",
        "scikit-image",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ssim-image-compressor=ssim_image_compressor.cli:main"
        ]
    },
)
