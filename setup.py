from setuptools import setup, find_packages
setup(
    name="geo_multisearch",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "fastapi",
        "pydantic>=2",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ]
    },
    entry_points={
        'console_scripts': [
            'geo-multisearch=geo_multisearch.__main__:main'
        ]
    }
)
