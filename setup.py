from setuptools import setup


setup(
    name="data-alchemist",
    version="0.1.0",
    description="Validate, correct and prioritize client, worker and task spreadsheets for resource allocation",
    packages=["data_alchemist"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "data-alchemist=data_alchemist.cli:main",
        ]
    },
)
