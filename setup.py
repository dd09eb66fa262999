#!/usr/bin/env python3

from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# Read requirements
with open(os.path.join(this_directory, 'requirements.txt'), encoding='utf-8') as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

setup(
    name="mixpanel-flags",
    version="1.0.0",
    author="Mixpanel",
    author_email="support@mixpanel.com",
    description="Local and remote feature flag evaluation for Mixpanel projects",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/mixpanel/mixpanel-flags-python",
    project_urls={
        "Bug Tracker": "https://github.com/mixpanel/mixpanel-flags-python/issues",
        "Documentation": "https://docs.mixpanel.com/docs/featureflags",
    },
    package_dir={'': 'src'},
    packages=find_packages('src'),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Internet :: WWW/HTTP",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "pytest-timeout>=2.0",
            "responses>=0.18.0",
            "black>=21.0",
            "flake8>=3.8",
            "mypy>=0.812",
        ],
        "test": [
            "pytest>=6.0",
            "pytest-timeout>=2.0",
            "responses>=0.18.0",
        ],
    },
    keywords="feature flags, experimentation, a/b testing, mixpanel, rollouts",
    include_package_data=True,
    zip_safe=False,
)
