from qbt_limits.cli import main

main()
