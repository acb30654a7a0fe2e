from linkrelay.server import main

main()
