from setuptools import setup, find_packages


setup(
    name="pyzpos",
    version="0.1.0",
    description="Z-position correction for stacks of serial sections",
    packages=find_packages(include=["pyzpos", "pyzpos.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.22",
        "scipy>=1.8",
        "pydantic>=2.0",
        "tifffile>=2022.5.4",
        "h5py>=3.6",
        "scikit-image>=0.19",
        'tomli>=2.0; python_version < "3.11"',
    ],
    extras_require={
        "yaml": ["pyyaml>=6.0"],
        "test": ["pytest>=7.0", "pyyaml>=6.0"],
    },
    entry_points={
        "console_scripts": [
            "pyzpos-z-correct=pyzpos.z_correct.cli:main",
        ],
    },
)
