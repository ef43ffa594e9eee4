from setuptools import setup, find_packages

setup(
    name="form-rules-lib",
    version="0.1.0",
    description="Rule-based form validation with cross-field and business rules",
    author="Jude Payne",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        'form_rules_lib': ['engine-config.yaml'],
    },
    include_package_data=True,
    install_requires=[
        'pyyaml>=6.0',
        'jsonschema>=4.17.0',
        'requests>=2.28.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9',
)
