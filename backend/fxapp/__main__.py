from fxapp.main import main

main()
