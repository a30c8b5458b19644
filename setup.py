from setuptools import setup, find_packages

setup(
    name             = 'reasoning-mirror',
    version          = '1.0.0',
    description      = 'Reasoning Mirror — Socratic tutor rule layer: crisis gate, rubric coverage, document resolver, progress gates',
    author           = 'Reasoning Mirror contributors',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest>=7.0', 'httpx>=0.24'],
    },
    entry_points     = {
        'console_scripts': [
            'mirror     = mirror.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
