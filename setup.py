#!/usr/bin/env python3

"Setuptools params"

from setuptools import setup, find_packages

VERSION = '0.1'

modname = distname = 'p4control'

def readme():

    with open('README.md','r') as f:
        return f.read()

setup(
    name=distname,
    version=VERSION,
    description='P4Runtime control plane: sessions, mastership arbitration, tables and counters',
    packages=find_packages(),
    long_description=readme(),
    long_description_content_type='text/markdown',
    include_package_data = True,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Developers",
        "Topic :: System :: Networking",
        ],
    keywords='networking p4 p4runtime grpc',
    license='GPLv2',
    python_requires='>=3.7',
    install_requires=[
        'googleapis-common-protos >= 1.52',
        'grpcio >= 1.17.2',
        'ipaddr',
        'p4runtime',
        'protobuf >= 3.6.1, <= 3.20.3',
        'setuptools',
    ],
    extras_require={
        'test': ['pytest'],
    }
)
