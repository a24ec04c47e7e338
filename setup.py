from setuptools import find_packages, setup

setup(
    name='mcumgr-client',
    version='0.3.0',
    description='Python client for mcumgr / SMP device management (image upload, state, reset)',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['mcumgr', 'mcumgr.*']),
    python_requires='>=3.11',
    install_requires=[
        'cbor2',
        'construct',
        'msgspec',
        'tenacity',
        'transitions',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
)
