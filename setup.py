#!/usr/bin/env python3

import os

from setuptools import find_packages, setup

# Release builds set VERSION; development installs fall back to the package version.
version = os.getenv("VERSION", "1.5")

setup(
    name='wallet-client',

    # Versions should comply with PEP440.  For a discussion on single-sourcing
    # the version across setup.py and the project code, see
    # https://packaging.python.org/en/latest/single_source_version.html
    version=version,

    description='Client for fetching keytabs and other secrets from a wallet server',

    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        # How mature is this project? Common values are
        #   3 - Alpha
        #   4 - Beta
        #   5 - Production/Stable
        'Development Status :: 5 - Production/Stable',

        # Indicate who your project is intended for
        'Intended Audience :: System Administrators',
        'Topic :: System :: Systems Administration :: Authentication/Directory',

        'License :: OSI Approved :: MIT License',

        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.7',
    ],

    # What does your project relate to?
    keywords='kerberos keytab remctl wallet srvtab',

    packages=find_packages(include=['wallet']),

    python_requires='>=3.7',

    # Run-time dependencies are the standard library plus the remctl and
    # kinit binaries on the PATH. Test dependencies are installed with the
    # "test" extra.
    install_requires=[],

    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },

    entry_points={
        'console_scripts': [
            'wallet = wallet.cli:wallet',
            'wallet-rekey = wallet.cli:wallet_rekey',
        ],
    },
)
