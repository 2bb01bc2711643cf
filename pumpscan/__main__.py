from pumpscan.main import main

main()
