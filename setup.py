# setup.py
from setuptools import setup, find_packages
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="pageocr",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["pageocr", "pageocr.*"]),
    description="Text extraction from PDFs and images: embedded text first, OCR fallback per page.",
    long_description=long_description,
    long_description_content_type='text/markdown',
    python_requires=">=3.10",

    install_requires=[
        "PyMuPDF",
        "Pillow",
        "numpy",
        "pytesseract",
        "python-slugify",
        "tqdm",
    ],
    extras_require={
        "easyocr": [
            "easyocr",
            "torch",
            "torchvision",
        ],
        "test": [
            "pytest",
        ],
    },
    entry_points={
        'console_scripts': [
            'pageocr=pageocr.cli:main',
        ],
    },
)
