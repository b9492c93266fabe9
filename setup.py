from setuptools import setup


setup(
    name="gl-recon",
    version="0.1.0",
    description="Local GL export classification, strict date parsing and site review for ledger reconciliation",
    packages=["gl_recon", "gl_recon.pipeline"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "gl-recon=gl_recon.cli:main",
        ]
    },
)
