from setuptools import setup


setup(
    name="roster-doctor",
    version="0.1.0",
    description="Local reconciliation and duplicate checks for team mail-recipient rosters kept in spreadsheets",
    packages=["roster_doctor", "roster_doctor.core"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "roster-doctor=roster_doctor.cli:main",
        ]
    },
)
